from app.utils.response import error_response, success_response, validation_error_response


def test_success_response_with_data():
    result = success_response(data={"id": "d-001"})
    assert result == {"status": "success", "data": {"id": "d-001"}, "message": None}


def test_success_response_with_message():
    result = success_response(data=None, message="Diagnosis submitted")
    assert result == {"status": "success", "data": None, "message": "Diagnosis submitted"}


def test_error_response():
    result = error_response("Diagnosis not found")
    assert result == {"status": "error", "data": None, "message": "Diagnosis not found"}


def test_error_response_with_data():
    result = error_response("The given data was invalid.", data={"errors": {"category": "required"}})
    assert result == {
        "status": "error",
        "data": {"errors": {"category": "required"}},
        "message": "The given data was invalid.",
    }


def test_validation_error_response():
    result = validation_error_response({"images.1": "Unsupported image type."})
    assert result == {
        "status": "error",
        "data": {"errors": {"images.1": "Unsupported image type."}},
        "message": "The given data was invalid.",
    }
