"""Allow ``python -m casm_dbg``."""

from casm_dbg.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
