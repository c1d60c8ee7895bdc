# SPDX-License-Identifier: LGPL-3.0-or-later
class FakeLogger:
    def __init__(self):
        self.records = []

    def _log(self, level, msg, *a, **k):
        text = str(msg) % a if a else str(msg)
        self.records.append((level, text, (k.get("extra") or {}).get("ctx")))

    def info(self, msg, *a, **k): self._log("info", msg, *a, **k)
    def warning(self, msg, *a, **k): self._log("warning", msg, *a, **k)
    def error(self, msg, *a, **k): self._log("error", msg, *a, **k)
    def debug(self, msg, *a, **k): self._log("debug", msg, *a, **k)

    def isEnabledFor(self, _lvl):
        return False

    def messages(self, level):
        return [m for lvl, m, _ in self.records if lvl == level]
