# flake8: noqa

from gce_auth.client import *
from gce_auth.environment import *
from gce_auth.errors import *
from gce_auth.metadata import *
from gce_auth.token import *
from gce_auth.transport import *
