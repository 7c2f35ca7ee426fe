from __future__ import annotations

from host_probe.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
