"""Interactive questions asked during an upgrade run."""

from typing import Optional, Sequence

from rich.prompt import Confirm, IntPrompt, Prompt


class PromptService:
    def __init__(self, console):
        self.console = console

    def confirm(self, message: str, default: bool = True) -> bool:
        return Confirm.ask(message, default=default, console=self.console)

    def text(self, message: str, default: Optional[str] = None) -> str:
        if default is None:
            return Prompt.ask(message, console=self.console).strip()
        return Prompt.ask(message, default=default, console=self.console).strip()

    def select(self, message: str, choices: Sequence[str]) -> str:
        """Numbered menu; returns the chosen entry."""
        self.console.print()
        self.console.print(message)
        for index, choice in enumerate(choices, start=1):
            self.console.print(f"{index}. {choice}")

        while True:
            result = IntPrompt.ask(
                f"Enter a valid option [[b]1[/b] and [b]{len(choices)}[/b]]",
                console=self.console,
            )
            if 1 <= result <= len(choices):
                return choices[result - 1]
            self.console.print(f"[prompt.invalid] Number must be between [[b]1[/b] and [b]{len(choices)}[/b]]")
