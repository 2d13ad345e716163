"""wa-operator - A personal WhatsApp operator that replies while you are away."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wa-operator")
except PackageNotFoundError:
    __version__ = "0.1.0"

__logo__ = "📟"
__brand__ = "wa-operator"
