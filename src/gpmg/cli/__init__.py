"""
GPMG Command-Line Interface
===========================

- **gpmg**: generate a Ghidra processor module from an instruction list

The tool is a Click application; errors are mapped to exit codes by
``gpmg.cli.errors``.
"""

__all__ = ["gpmg"]
