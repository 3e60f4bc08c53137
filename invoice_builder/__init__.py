"""Invoice builder: totals, local JSON store, CSV/Sheets import, printable export, hosted checkout."""

__version__ = "0.1.0"
