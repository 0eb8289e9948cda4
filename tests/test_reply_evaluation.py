from app.services.reply_evaluation import PDF, RLE, evaluate_answer, wrap_rtl


class TestEvaluateAnswer:
    def test_passes_when_all_required_present(self):
        result = evaluate_answer(
            "The workshop costs 250 NIS and starts at 10:00",
            must_contain=["250", "10:00"],
            should_contain=["NIS", "parking"],
            should_not_contain=["free"],
        )

        assert result.passed is True
        assert result.must_contain_matches == 2
        assert result.should_contain_matches == 1
        assert result.should_not_contain_matches == 0

    def test_fails_when_required_missing(self):
        assert evaluate_answer("It costs 250", must_contain=["250", "10:00"]).passed is False

    def test_fails_when_forbidden_present(self):
        assert evaluate_answer("Entry is free", should_not_contain=["FREE"]).passed is False

    def test_ignores_case_whitespace_dashes_and_underscores(self):
        result = evaluate_answer("Call 050-123 4567 for check_in", must_contain=["0501234567", "check-in"])
        assert result.passed is True

    def test_summary(self):
        summary = evaluate_answer("a b", must_contain=["a"], should_contain=["c"]).summary()
        assert summary == {"must_contain": "1/1", "should_contain": "0/1", "should_not_contain": "0/0", "passed": True}


class TestWrapRtl:
    def test_wraps_hebrew(self):
        assert wrap_rtl("שלום") == f"{RLE}שלום{PDF}"

    def test_leaves_latin_text(self):
        assert wrap_rtl("hello") == "hello"
