"""Tests for diagram sanitising, data URLs and the wire schemas."""

import pytest

from quiz_generation.schemas import EncodedImage, QuizContent
from quiz_generation.utils import parse_data_url, sanitize_diagram

from conftest import generation_payload

SVG = '<svg viewBox="0 0 10 10"><circle cx="5" cy="5" r="4"/></svg>'


class TestSanitizeDiagram:
    """Tests for sanitize_diagram."""

    def test_valid_svg_trimmed(self):
        assert sanitize_diagram(f"  {SVG}\n") == SVG

    @pytest.mark.parametrize("diagram", [
        None,
        "",
        "<div>not svg</div>",
        "<svg><rect/>",
        '<svg><script>alert(1)</script></svg>',
        '<svg><a href="javascript:alert(1)">x</a></svg>',
        '<svg onload="steal()"></svg>',
        '<svg><foreignObject><p>x</p></foreignObject></svg>',
        '<svg><image href="data: text/html;base64,AAAA"/></svg>',
    ])
    def test_rejected(self, diagram):
        assert sanitize_diagram(diagram) is None


class TestDataUrl:
    """Tests for data URL handling."""

    def test_parse(self):
        assert parse_data_url("data:image/png;base64,iVBORw0KGgo=") == ("image/png", "iVBORw0KGgo=")

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_data_url("http://example.com/page.png")

    def test_encoded_image_round_trip(self):
        image = EncodedImage(data=b"\x89PNG fake", mime_type="image/png")
        url = image.to_data_url()
        assert url.startswith("data:image/png;base64,")
        assert EncodedImage.from_data_url(url) == image


class TestWireFormat:
    """camelCase on the wire, snake_case in Python."""

    def test_quiz_content_from_wire_json(self):
        payload = generation_payload(count=4)
        quiz = QuizContent.model_validate({"lesson": payload["lesson"], "questions": payload["questions"]})
        assert quiz.lesson.key_points == ["Plants make food", "Herbivores eat plants"]
        assert quiz.questions[0].evidence.source_text.startswith("Plants make")
        dumped = quiz.model_dump(by_alias=True, exclude_none=True)
        assert dumped["lesson"]["keyPoints"] == ["Plants make food", "Herbivores eat plants"]
        assert dumped["questions"][0]["evidence"]["pageIndex"] == 0
        assert "warnings" not in dumped


class TestErrors:
    """Error codes surfaced to callers."""

    def test_recapture_default_reason(self):
        from quiz_generation.errors import DEFAULT_RECAPTURE_MESSAGE, RecaptureRequiredError
        error = RecaptureRequiredError()
        assert error.reason == DEFAULT_RECAPTURE_MESSAGE
        assert error.code == "RECAPTURE_REQUIRED"

    def test_validation_unavailable(self):
        from quiz_generation.errors import QuizGenerationError, ValidationUnavailableError
        error = ValidationUnavailableError()
        assert isinstance(error, QuizGenerationError)
        assert (error.code, error.http_status) == ("VALIDATION_UNAVAILABLE", 503)
