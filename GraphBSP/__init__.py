__version__ = "0.1.0"

from .bsp_core import (
    GraphJob,
    graph_job,
    create_graph_job,
    run_graph_job
)
from .graph_store import (
    create_vertex,
    add_edge
)
from .vertex_program import create_vertex_program
from .combiners import (
    create_combiner,
    create_min_combiner,
    create_max_combiner,
    create_sum_combiner
)
from .errors import (
    GraphBSPError,
    ConfigError,
    LoadError,
    ComputeError,
    CombinerError,
    RoutingError,
    JobCancelledError
)
