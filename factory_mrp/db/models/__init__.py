from .master import *  # noqa
from .inventory import *  # noqa
from .production import *  # noqa
from .audit import *  # noqa
