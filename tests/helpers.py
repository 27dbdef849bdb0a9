"""Test doubles and seeding helpers shared across test modules."""

from typing import Any, Callable, List, Union

TEST_USER_ID = "user-1"

Script = Union[str, Exception, Callable[[str], str]]


class ScriptedLLM:
    """Provider stand-in that replays scripted responses in order.

    The last entry is repeated once the script runs out. An entry may be raw
    text, an exception to raise, or a callable receiving the prompt.
    """

    def __init__(self, *responses: Script):
        self.responses: List[Script] = list(responses)
        self.calls: List[tuple] = []

    async def generate(self, prompt: str, max_tokens: int) -> str:
        self.calls.append((prompt, max_tokens))
        entry = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(entry, Exception):
            raise entry
        if callable(entry):
            return entry(prompt)
        return entry


async def add_rows(session, *rows: Any) -> List[Any]:
    """Insert and commit the given model instances."""
    session.add_all(rows)
    await session.commit()
    return list(rows)
