"""
Interfaces of the storages the client relies on.

The credential store keeps the tokens between two sessions (cookies in a
browser, a keyring or a file in a script). The media storage receives the
raw content of uploaded media objects.
"""

from typing import Protocol


class CredentialStore(Protocol):
    def get(self, name: str) -> str | None: ...

    def set(self, name: str, value: str) -> None: ...

    def remove(self, name: str) -> None: ...


class MediaStorage(Protocol):
    async def upload(self, bucket: str, key: str, content: bytes) -> dict:
        """Store `content` and return the fields referencing it in a media object."""
        ...


class MemoryCredentialStore:
    """Keeps the credentials in memory, for scripts and tests."""

    def __init__(self, **values: str):
        self.values = dict(values)

    def get(self, name: str) -> str | None:
        return self.values.get(name)

    def set(self, name: str, value: str) -> None:
        self.values[name] = value

    def remove(self, name: str) -> None:
        self.values.pop(name, None)
