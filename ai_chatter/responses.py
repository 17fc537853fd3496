"""
Structured bot responses: text plus optional titled sections.

Rendering to a particular chat platform is the adapter's job; to_text()
gives a plain-text fallback every adapter can use.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ResponseSection:
    section_id: str
    header: str
    text: str = ""
    image_urls: List[str] = field(default_factory=list)


@dataclass
class BotResponse:
    text: Optional[str] = None
    sections: List[ResponseSection] = field(default_factory=list)

    def add_section(
        self, section_id: str, header: str, text: str = "", image_urls: Optional[List[str]] = None
    ) -> "BotResponse":
        self.sections.append(ResponseSection(section_id, header, text, list(image_urls or [])))
        return self

    def section(self, section_id: str) -> Optional[ResponseSection]:
        for s in self.sections:
            if s.section_id == section_id:
                return s
        return None

    def to_text(self) -> str:
        parts = [self.text] if self.text else []
        for s in self.sections:
            lines = [f"*{s.header}*"]
            if s.text:
                lines.append(s.text)
            lines.extend(s.image_urls)
            parts.append("\n".join(lines))
        return "\n\n".join(parts)


def text_response(text: str) -> BotResponse:
    return BotResponse(text=text)


def code_response(text: str) -> BotResponse:
    """A response showing the text as a preformatted block."""
    return BotResponse(text="```\n" + text.replace("```", "") + "\n```")
