"""Segment multi-part sheet-music PDFs into instrument parts and gate auto-commit."""
