# Static settings. Nothing here is mutated at runtime.

# Graphviz layout engines a caller may pick from to render the DOT output.
RENDER_ENGINES = ("circo", "dot", "fdp", "neato", "osage", "twopi")
DEFAULT_RENDER_ENGINE = "dot"

# Node colours for threads caught in a deadlock cycle.
DEADLOCK_FILL_COLOR = "indianred"
DEADLOCK_FONT_COLOR = "white"

MAX_DUMP_BYTES = 10 * 1024 * 1024

LOG_LEVEL_ENV = "DEADLOCK_GRAPH_LOG_LEVEL"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
DEFAULT_LOG_LEVEL = "WARNING"
