"""blobnet: capability-authorized content publication and discovery."""

from .bootstrap import Network, start_network
from .config import BlobnetConfig, load_config
from .digest import Link
from .harness import ScenarioReport, run_upload_scenario
from .indexing import IndexingClient, IndexingService, Match, Query, QueryResult
from .polling import poll_until_converged
from .receipts import Failure, Ok
from .storage import StorageNode
from .transports import get_connection
from .upload import AlreadyPresent, UploadService

__version__ = "0.1.0"
__all__ = [
    "AlreadyPresent",
    "BlobnetConfig",
    "Failure",
    "IndexingClient",
    "IndexingService",
    "Link",
    "Match",
    "Network",
    "Ok",
    "Query",
    "QueryResult",
    "ScenarioReport",
    "StorageNode",
    "UploadService",
    "get_connection",
    "load_config",
    "poll_until_converged",
    "run_upload_scenario",
    "start_network",
]
