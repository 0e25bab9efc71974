from .base import ORDERED_STEPS, InstallStep, Step, StepContext
from .step_10_download_binary import DownloadBinaryStep
from .step_20_install_binary import InstallBinaryStep
from .step_30_configure_firewall import ConfigureFirewallStep
from .step_40_configure_certificate import ConfigureCertificateStep
from .step_50_configure_remainder import ConfigureRemainderStep

STEP_IMPLS = {
    Step.DOWNLOAD_BINARY: DownloadBinaryStep(),
    Step.INSTALL_BINARY: InstallBinaryStep(),
    Step.CONFIGURE_FIREWALL: ConfigureFirewallStep(),
    Step.CONFIGURE_CERTIFICATE: ConfigureCertificateStep(),
    Step.CONFIGURE_REMAINDER: ConfigureRemainderStep(),
}

__all__ = [
    "ORDERED_STEPS",
    "STEP_IMPLS",
    "InstallStep",
    "Step",
    "StepContext",
    "DownloadBinaryStep",
    "InstallBinaryStep",
    "ConfigureFirewallStep",
    "ConfigureCertificateStep",
    "ConfigureRemainderStep",
]
