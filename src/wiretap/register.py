"""Start capture on import.

    import wiretap.register  # noqa: F401

Configuration comes from ``load_config()``: config files in the current
directory plus ``WIRETAP_*`` environment variables.  Setting
``WIRETAP_ENV=production`` or ``WIRETAP_ENABLED=0`` turns it into a no-op.
"""

from wiretap.config_loader import load_config
from wiretap.session import start

handle = start(load_config())
