"""
L0 Data — ``__init__.py`` re-exports thresholds, timeouts and advisories.
"""

from hostprep.core.services.provisioning.data.advisories import (  # noqa: F401
    ADVISORIES,
    ERROR_CODE_STEPS,
)
from hostprep.core.services.provisioning.data.constants import (  # noqa: F401
    TIMEOUTS,
    ExitCode,
)
