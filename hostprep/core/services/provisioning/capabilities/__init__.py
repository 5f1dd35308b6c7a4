"""
Capabilities — ``__init__.py`` re-exports one probe/remediate pair per step.
"""

from hostprep.core.services.provisioning.capabilities.base import Capability  # noqa: F401
from hostprep.core.services.provisioning.capabilities.companion_process import (  # noqa: F401
    CompanionProcessCapability,
)
from hostprep.core.services.provisioning.capabilities.os_features import (  # noqa: F401
    OsFeaturesCapability,
)
from hostprep.core.services.provisioning.capabilities.os_version import (  # noqa: F401
    OsVersionCapability,
)
from hostprep.core.services.provisioning.capabilities.runtime_image import (  # noqa: F401
    RuntimeImageCapability,
)
from hostprep.core.services.provisioning.capabilities.subsystem import (  # noqa: F401
    SubsystemCapability,
)
