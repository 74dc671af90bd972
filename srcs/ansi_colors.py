"""
Terminal colours for the dtleak summaries and spinners.

Only console output is coloured; report files stay plain text.
"""

RESET = "\033[0m"

# Spinner frames
LIGHT_PINK = "\033[38;5;225m"
DARK_GREEN = "\033[38;5;49m"

# Step results and summary titles
GREEN = "\033[38;5;158m"
RED = "\033[38;5;174m"

# Summary box; the dark shade marks the total row
LIGHT_YELLOW = "\033[38;5;230m"
DARK_YELLOW = "\033[38;5;228m"

# File index legend
GRAY = "\033[38;5;240m"
