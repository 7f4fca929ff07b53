"""utterlens: speech metrics and on-device conversation summaries.

Start with:
    python main.py transcribe -i recording.m4a
    python main.py metrics -i recording.m4a
    python main.py summary -i messages.json
"""

from __future__ import annotations

from utterlens.cli import app_entry

if __name__ == "__main__":
    app_entry()
