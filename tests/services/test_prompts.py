import entandoupgrader.services.prompts as prompts_module
from entandoupgrader.services.prompts import PromptService


class DummyConsole:
    def __init__(self):
        self.messages = []

    def print(self, message="", *_args, **_kwargs):
        self.messages.append(str(message))


def test_select_reasks_until_option_is_in_range(monkeypatch):
    answers = [7, 2]
    monkeypatch.setattr(prompts_module.IntPrompt, "ask", lambda *_args, **_kwargs: answers.pop(0))
    console = DummyConsole()

    choice = PromptService(console).select("Pick a context", ["prod", "dev"])

    assert choice == "dev"
    assert "1. prod" in console.messages
    assert "2. dev" in console.messages
    assert any("Number must be between" in message for message in console.messages)


def test_text_strips_answer(monkeypatch):
    monkeypatch.setattr(prompts_module.Prompt, "ask", lambda *_args, **_kwargs: "  entando  ")

    assert PromptService(DummyConsole()).text("Enter the target namespace") == "entando"


def test_confirm_passes_default(monkeypatch):
    captured = {}

    def fake_ask(message, default=None, console=None):
        captured["default"] = default
        return False

    monkeypatch.setattr(prompts_module.Confirm, "ask", fake_ask)

    assert PromptService(DummyConsole()).confirm("Continue?", default=False) is False
    assert captured["default"] is False
