from numbers import Number
from typing import Union

AnyNum = Union[int, float, complex, Number]
