import json
from dataclasses import dataclass, field
from typing import List, Optional

from scamlens.schemas.analyze_schemas import (
    AnalysisRequest,
    FetchOutcome,
    ImageAttachment,
)
from scamlens.utils.data_url import parse_images
from scamlens.utils.preprocessing import truncate


SYSTEM_INSTRUCTIONS = (
    "You are an expert in financial fraud and cybersecurity. Your job is to analyze "
    "the information a user submits and decide whether it is an online scam such as "
    "phishing, fake job offers, investment fraud, fake shops, romance scams or "
    "identity theft.\n\n"
    "Tone rules:\n"
    "- Be calm, direct and practical. The reader may be worried or elderly.\n"
    "- Do not lecture and do not use technical jargon without explaining it.\n\n"
    "Analysis steps:\n"
    "1. Look for pressure and urgency (deadlines, threats, account suspension).\n"
    "2. Look for requests for sensitive data: passwords, OTP codes, card numbers, ID documents.\n"
    "3. Check links and domains: look-alike brand names, odd TLDs, URL shorteners, raw IP addresses.\n"
    "4. Check page content when provided: login or payment forms on unrelated domains, "
    "scripts loaded from unknown hosts.\n"
    "5. Look for offers that are too good to be true, requests for upfront fees, "
    "crypto or gift card payments.\n"
    "6. Note poor grammar and spelling, especially from supposedly official senders.\n\n"
    "Prohibitions:\n"
    "- NEVER give advice about personal relationships or analyze emotions unless it is "
    "directly part of a financial scam (for example a romance scam).\n"
    "- Do not invent facts about the sender or the website that are not in the input.\n"
    "- If the evidence is thin, answer UNCERTAIN rather than guessing.\n\n"
    "Output rules:\n"
    "- verdict is one of \"SCAM\", \"NOT A SCAM\", \"UNCERTAIN\".\n"
    "- confidence is an integer from 0 to 100.\n"
    "- reason, every red_flags entry and advice MUST be written in {language}.\n"
    "- Reply with the JSON object only, strictly following the requested format."
)


@dataclass(frozen=True)
class FewShotExample:
    content: str
    verdict: dict


FEW_SHOT_EXAMPLES = (
    FewShotExample(
        content=(
            'Text: "Your bank account has been locked due to suspicious activity. '
            'Verify your identity within 24 hours at http://vietcombank-secure-login.xyz '
            'or your account will be closed."'
        ),
        verdict={
            "verdict": "SCAM",
            "confidence": 95,
            "reason": "A fake bank alert that pushes the user to a look-alike login page.",
            "red_flags": [
                "Threat of account closure with a 24 hour deadline",
                "Domain imitates the bank name but ends in .xyz",
                "Asks for identity verification through a link",
            ],
            "advice": "Do not open the link. Contact the bank through the number on your card or its official app.",
        },
    ),
    FewShotExample(
        content=(
            'Text: "Hi, this is Lan from the dental clinic. Reminder that your appointment '
            'is tomorrow at 9:00. Reply C to confirm or call us at the usual number."'
        ),
        verdict={
            "verdict": "NOT A SCAM",
            "confidence": 85,
            "reason": "An ordinary appointment reminder with no request for money or personal data.",
            "red_flags": [],
            "advice": "No action needed. If unsure, call the clinic using a number you already have.",
        },
    ),
    FewShotExample(
        content=(
            'Text: "We reviewed your CV. Part-time online job, 500k-2M VND per day, '
            'just give likes to products on Shopee. Add us on Telegram to start."'
        ),
        verdict={
            "verdict": "SCAM",
            "confidence": 90,
            "reason": "Classic task scam: easy money for liking products, moved to Telegram.",
            "red_flags": [
                "Unrealistic pay for trivial work",
                "Unsolicited job offer",
                "Moves the conversation to Telegram",
            ],
            "advice": "Do not add the account and never pay a deposit to 'unlock' tasks or withdrawals.",
        },
    ),
    FewShotExample(
        content='URL: "https://shop-deals-today.com/sale"\nNote: the page content could not be retrieved.',
        verdict={
            "verdict": "UNCERTAIN",
            "confidence": 40,
            "reason": "The domain is generic and the page could not be checked, so there is not enough evidence.",
            "red_flags": ["Unknown shop domain"],
            "advice": "Look up reviews of the shop and pay only with methods that offer buyer protection.",
        },
    ),
)


@dataclass
class PromptDocument:
    """Ordered text segments plus image attachments for one model call."""

    segments: List[str] = field(default_factory=list)
    images: List[ImageAttachment] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join(self.segments)


def render_examples(examples=FEW_SHOT_EXAMPLES) -> str:
    blocks = ["Examples (shown in English; your own answer must use the requested language):"]
    for number, example in enumerate(examples, start=1):
        blocks.append(
            f"Example {number}\n"
            f"Input:\n{example.content}\n"
            f"Output:\n{json.dumps(example.verdict, ensure_ascii=False)}"
        )
    return "\n\n".join(blocks)


def _url_segment(url: str, fetch_outcome: Optional[FetchOutcome], max_text_chars: int, max_form_chars: int) -> str:
    lines = [f'URL: "{url}"']
    if fetch_outcome is None:
        return lines[0]

    if not fetch_outcome.ok:
        lines.append(f"Note: the page content could not be retrieved ({fetch_outcome.error}).")
        return "\n".join(lines)

    page = fetch_outcome.content
    if page.visible_text:
        lines.append(f'Visible page text: "{truncate(page.visible_text, max_text_chars)}"')
    else:
        lines.append("Visible page text: (empty)")
    if page.form_markup:
        lines.append(f"Form markup:\n{truncate(page.form_markup, max_form_chars)}")
    if page.script_sources:
        lines.append("External scripts:\n" + "\n".join(f"- {src}" for src in page.script_sources))
    return "\n".join(lines)


def build_prompt(
    request: AnalysisRequest,
    fetch_outcome: Optional[FetchOutcome] = None,
    output_language: str = "Vietnamese",
    max_text_chars: int = 3000,
    max_form_chars: int = 2000,
) -> PromptDocument:
    """
    Assemble the prompt for one analysis request.

    Request segments appear in a fixed order (text, URL with page content,
    user context, image marker) and only when their source is non-empty.
    """
    images = parse_images(request.images)

    segments = [
        SYSTEM_INSTRUCTIONS.format(language=output_language),
        render_examples(),
        "Here is the information to analyze:",
    ]

    text = (request.text or "").strip()
    if text:
        segments.append(f'Text content: "{text}"')

    url = (request.url or "").strip()
    if url:
        segments.append(_url_segment(url, fetch_outcome, max_text_chars, max_form_chars))

    user_context = (request.user_context or "").strip()
    if user_context:
        segments.append(f'Additional context from the user: "{user_context}"')

    if images:
        if len(images) == 1:
            segments.append("One screenshot is also attached for analysis.")
        else:
            segments.append(f"{len(images)} screenshots are also attached for analysis, in the order received.")

    return PromptDocument(segments=segments, images=images)
