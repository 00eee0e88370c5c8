"""Tests for OCR candidate scoring and selection."""

from receipt_ocr.ocr.scoring import (
    MAX_LENGTH_CREDIT,
    CandidateScorer,
    OcrCandidate,
    score_text,
)


class TestScoreText:
    """Tests for the score_text heuristic."""

    def test_empty_scores_zero(self) -> None:
        assert score_text("") == 0

    def test_components_add_up(self) -> None:
        # 9 chars + "total" keyword + one number + one key: value pair
        assert score_text("Total: 10") == 9 + 50 + 10 + 30

    def test_keyword_counts_once(self) -> None:
        once = score_text("total")
        twice = score_text("total total")
        assert twice - once == len(" total")

    def test_keywords_case_insensitive(self) -> None:
        assert score_text("AMOUNT") == score_text("amount")

    def test_length_credit_capped(self) -> None:
        assert score_text("x" * 5000) == MAX_LENGTH_CREDIT

    def test_garbage_penalized(self) -> None:
        assert score_text("@@@@") == 4 - 500

    def test_newlines_not_garbage(self) -> None:
        assert score_text("ab\ncd") == 5

    def test_receipt_beats_noise(self) -> None:
        receipt = "Amount: 4581.00 ETB\nDate: 05-01-2026\nPayer: Abebe"
        noise = "~|}{ ]][[ ^^ ¬¬ §§ 4 ~~"
        assert score_text(receipt) > score_text(noise)


class TestCandidateScorer:
    """Tests for candidate selection."""

    def setup_method(self) -> None:
        self.scorer = CandidateScorer()

    def test_select_none_when_empty(self) -> None:
        assert self.scorer.select([]) is None

    def test_select_highest(self) -> None:
        best = self.scorer.select(
            [
                ("uniform_block", "@@ ##"),
                ("single_column", "Total: 45.67\nReceipt No: 123456"),
                ("fully_automatic", "Total"),
            ]
        )
        assert isinstance(best, OcrCandidate)
        assert best.strategy_id == "single_column"
        assert best.quality_score == score_text("Total: 45.67\nReceipt No: 123456")

    def test_tie_goes_to_first(self) -> None:
        best = self.scorer.select([("first", "ab"), ("second", "cd")])
        assert best is not None
        assert best.strategy_id == "first"

    def test_selected_text_is_verbatim(self) -> None:
        text = "  Amount:  10.00 \n\n"
        best = self.scorer.select([("only", text)])
        assert best is not None
        assert best.text == text
