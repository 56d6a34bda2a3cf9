"""
Conversation item dataclasses.

A ConversationItem is created when the server first reports it and is then
mutated in place as deltas arrive (audio append, transcript/text append,
tool-call arguments) until the server marks it completed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ItemStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


@dataclass
class ToolCall:
    """A function call requested by the agent"""
    name: str
    call_id: str
    arguments: str = ""
    type: str = "function"


@dataclass
class DecodedAudio:
    """Playable asset built from an item's accumulated PCM16 audio"""
    wav: bytes
    sample_rate: int
    sample_count: int
    pcm_length: int  # Bytes of PCM16 audio the asset was built from

    @property
    def duration(self) -> float:
        return self.sample_count / self.sample_rate if self.sample_rate else 0.0


@dataclass
class FormattedContent:
    """Display-ready content accumulated from deltas"""
    text: str = ""
    transcript: str = ""
    audio: bytearray = field(default_factory=bytearray)  # PCM16 LE, grows until completed
    file: Optional[DecodedAudio] = None
    tool: Optional[ToolCall] = None
    output: Optional[str] = None


@dataclass
class ConversationItem:
    """Single item of the conversation (message, function call or its output)"""
    id: str
    type: str = "message"
    role: str = "user"  # user | assistant | system | tool
    status: str = ItemStatus.IN_PROGRESS.value
    content: list = field(default_factory=list)
    formatted: FormattedContent = field(default_factory=FormattedContent)

    @property
    def is_completed(self) -> bool:
        return self.status == ItemStatus.COMPLETED.value

    @property
    def display_text(self) -> str:
        """Text shown for the item in the transcript listing"""
        formatted = self.formatted
        if self.type == "function_call_output":
            return formatted.output or ""
        if formatted.tool:
            return f"{formatted.tool.name}({formatted.tool.arguments})"
        if self.role == "user":
            if formatted.transcript:
                return formatted.transcript
            if formatted.audio:
                return "(Awaiting transcript)"
            return formatted.text or "(Item sent)"
        if self.role == "assistant":
            return formatted.transcript or formatted.text or "(Truncated)"
        return formatted.text or formatted.transcript

    def __repr__(self):
        return f"ConversationItem({self.id}, {self.role}, {self.status})"
