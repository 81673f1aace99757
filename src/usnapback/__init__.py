from usnapback.config import SnapbackConfig, load_config
from usnapback.designer.models import Mismatch, SnapbackDescriptor, SNVSite
from usnapback.designer.snapback import (
    build_final_snapback,
    calculate_melting_temp_differences,
    create_snapback,
)
from usnapback.designer.stem import (
    create_stem,
    evaluate_snapback_tail_matching_options,
    use_forward_primer,
)
from usnapback.exceptions import (
    GatewayError,
    InputValidationError,
    SnapbackError,
    SnapbackTmNotReachedError,
    ThermodynamicsError,
)
from usnapback.thermo.gateway import (
    NearestNeighborGateway,
    RemoteThermoGateway,
    ThermoGateway,
)
from usnapback.thermo.tm import (
    calculate_snapback_tm_wittwer,
    calculate_tm,
    get_stem_tm,
)
from usnapback.version import __version__

__all__ = [
    "GatewayError",
    "InputValidationError",
    "Mismatch",
    "NearestNeighborGateway",
    "RemoteThermoGateway",
    "SNVSite",
    "SnapbackConfig",
    "SnapbackDescriptor",
    "SnapbackError",
    "SnapbackTmNotReachedError",
    "ThermoGateway",
    "ThermodynamicsError",
    "__version__",
    "build_final_snapback",
    "calculate_melting_temp_differences",
    "calculate_snapback_tm_wittwer",
    "calculate_tm",
    "create_snapback",
    "create_stem",
    "evaluate_snapback_tail_matching_options",
    "get_stem_tm",
    "load_config",
    "use_forward_primer",
]
