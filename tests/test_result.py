from app.services.result import Result


class TestResultSuccess:
    def test_success_creates_ok_result(self):
        result = Result.success("SM123")
        assert result.ok is True
        assert result.value == "SM123"
        assert result.error is None
        assert result.error_code is None

    def test_success_with_none_value(self):
        assert Result.success(None).ok is True


class TestResultFailure:
    def test_failure_creates_not_ok_result(self):
        result = Result.failure("Invalid phone number: whatsapp:+1", "invalid_number")
        assert result.ok is False
        assert result.error == "Invalid phone number: whatsapp:+1"
        assert result.error_code == "invalid_number"
        assert result.value is None

    def test_failure_default_code(self):
        assert Result.failure("Error message").error_code == "unknown"
