"""Tests for prompt assembly."""

from scamlens.pipelines.prompt_builder import (
    FEW_SHOT_EXAMPLES,
    SYSTEM_INSTRUCTIONS,
    build_prompt,
    render_examples,
)
from scamlens.schemas.analyze_schemas import AnalysisRequest, FetchedPageContent, FetchOutcome


def _request(**fields):
    return AnalysisRequest.model_validate(fields)


class TestBuildPrompt:

    def test_fixed_blocks_come_first(self):
        document = build_prompt(_request(text="hello"))
        assert document.segments[0] == SYSTEM_INSTRUCTIONS.format(language="Vietnamese")
        assert document.segments[1] == render_examples()
        assert document.segments[2] == "Here is the information to analyze:"

    def test_output_language_is_required(self):
        document = build_prompt(_request(text="hello"), output_language="English")
        assert "MUST be written in English" in document.text

    def test_all_few_shot_examples_are_rendered(self):
        rendered = render_examples()
        for number, example in enumerate(FEW_SHOT_EXAMPLES, start=1):
            assert f"Example {number}" in rendered
            assert example.verdict["reason"] in rendered

    def test_segment_order(self, png_data_url):
        request = _request(
            text="the message",
            url="https://example.com",
            userContext="got it on Zalo",
            imageBase64Array=[png_data_url],
        )
        outcome = FetchOutcome(content=FetchedPageContent(url="https://example.com", visible_text="page body"))
        document = build_prompt(request, fetch_outcome=outcome)

        request_segments = document.segments[3:]
        assert len(request_segments) == 4
        assert request_segments[0] == 'Text content: "the message"'
        assert request_segments[1].startswith('URL: "https://example.com"')
        assert "page body" in request_segments[1]
        assert request_segments[2] == 'Additional context from the user: "got it on Zalo"'
        assert request_segments[3] == "One screenshot is also attached for analysis."

    def test_empty_fields_are_left_out(self):
        document = build_prompt(_request(text="only text", url="  ", userContext=""))
        assert document.segments[3:] == ['Text content: "only text"']

    def test_fetch_failure_adds_note(self):
        outcome = FetchOutcome(error="timed out after 5s")
        document = build_prompt(_request(url="https://slow.example"), fetch_outcome=outcome)
        assert document.segments[-1] == (
            'URL: "https://slow.example"\n'
            "Note: the page content could not be retrieved (timed out after 5s)."
        )

    def test_fetched_fields_are_truncated(self):
        page = FetchedPageContent(
            url="https://example.com",
            visible_text="x" * 500,
            form_markup="<form>" + "y" * 500 + "</form>",
            script_sources=["https://cdn.example/a.js"],
        )
        document = build_prompt(
            _request(url="https://example.com"),
            fetch_outcome=FetchOutcome(content=page),
            max_text_chars=50,
            max_form_chars=40,
        )
        segment = document.segments[-1]
        assert "x" * 50 not in segment
        assert "x" * 49 in segment
        assert "y" * 40 not in segment
        assert "- https://cdn.example/a.js" in segment

    def test_images_keep_order_and_count(self, png_data_url, jpeg_data_url):
        document = build_prompt(_request(imageBase64Array=[jpeg_data_url, png_data_url]))
        assert [image.mime_type for image in document.images] == ["image/jpeg", "image/png"]
        assert document.segments[-1].startswith("2 screenshots are also attached")

    def test_prompt_is_deterministic(self):
        request = _request(text="same", userContext="same context")
        assert build_prompt(request).text == build_prompt(request).text

    def test_text_joins_segments_with_blank_line(self):
        document = build_prompt(_request(text="hello"))
        assert document.text == "\n\n".join(document.segments)

    def test_task_scam_example_describes_the_task(self):
        task_example = FEW_SHOT_EXAMPLES[2]
        assert "give likes to products on Shopee" in task_example.content
        assert task_example.verdict["verdict"] == "SCAM"
