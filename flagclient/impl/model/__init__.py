from .clause import *
from .entity import *
from .feature_flag import *
from .segment import *
