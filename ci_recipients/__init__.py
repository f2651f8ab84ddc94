"""
CI Recipients module.

This module resolves who should be notified about a build: the committer
window resolver and its upstream collector, the other recipient providers,
and the formatter that maps identities to e-mail addresses.

It depends only on ci_common and performs no I/O, so it can be embedded in
the server, the admin CLI or any other notification pipeline.
"""

from .formatter import (
    DirectoryIdentityResolver,
    EmailAddressResolver,
    IdentityResolver,
    RecipientFormatter,
)
from .providers import (
    PROVIDERS,
    RecipientProvider,
    build_providers,
    collect_recipients,
    parse_provider_names,
)
from .report import RecipientReport, build_report
from .resolver import CommitterWindowResolver
from .upstream import UpstreamCollector

__all__ = [
    "CommitterWindowResolver",
    "DirectoryIdentityResolver",
    "EmailAddressResolver",
    "IdentityResolver",
    "PROVIDERS",
    "RecipientFormatter",
    "RecipientProvider",
    "RecipientReport",
    "UpstreamCollector",
    "build_providers",
    "build_report",
    "collect_recipients",
    "parse_provider_names",
]
