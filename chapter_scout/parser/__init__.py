"""Pure text analysis: image discovery heuristics and sequential pattern detection."""
