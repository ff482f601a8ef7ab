"""Hub tagging bot: adds tags suggested in discussion comments to Hub repos.

This package provides:
- Hub webhook authentication, parsing and classification
- Candidate tag extraction from comments and discussion titles
- A bounded background worker pool for tag processing
- A tool-calling LLM agent that reads and adds repository tags
- An in-memory operation ledger exposed for inspection
"""

__version__ = "1.0.0"
