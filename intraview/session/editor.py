"""Editor mirror: the candidate's code and whether the agent has seen it"""

from dataclasses import dataclass


@dataclass
class EditorBuffer:
    code: str = ""
    last_sent_code: str = ""
    is_synced: bool = True
    language: str = "python"

    def update(self, text: str) -> None:
        self.code = text
        self.is_synced = text == self.last_sent_code

    def mark_sent(self) -> None:
        self.last_sent_code = self.code
        self.is_synced = True

    def as_message(self) -> str:
        return f"Candidate's current {self.language} code:\n```{self.language}\n{self.code}\n```"
