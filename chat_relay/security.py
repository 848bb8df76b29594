from typing import Optional, Sequence

SCHEMES = ("http://", "https://")


class OriginGuard:
    """Allowlist check for the ``Origin`` header of a WebSocket upgrade.

    An empty allowlist means allow-all, which also admits clients that send
    no origin at all (non-browser clients). Entries without a scheme match
    both the http and https forms of the host.
    """

    def __init__(self, allowed: Sequence[str] = ()):
        self._allowed = tuple(a.lower() for a in allowed)

    @classmethod
    def from_setting(cls, raw: Optional[str]) -> "OriginGuard":
        raw = (raw or "").strip()
        if not raw or raw == "*":
            return cls()
        return cls([item.strip() for item in raw.split(",") if item.strip()])

    @property
    def allow_all(self) -> bool:
        return not self._allowed

    @property
    def allowed(self) -> tuple[str, ...]:
        return self._allowed

    def is_allowed(self, origin: Optional[str]) -> bool:
        if self.allow_all:
            return True
        if origin is None:
            return False
        origin = origin.lower()
        for entry in self._allowed:
            if entry.startswith(SCHEMES):
                if origin == entry:
                    return True
            elif origin in (f"https://{entry}", f"http://{entry}"):
                return True
        return False
