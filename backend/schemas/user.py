from pydantic import BaseModel
from typing import Literal, Union

# Authenticated buyer (corporate account)
class Buyer(BaseModel):
    role: Literal["corporate"] = "corporate"
    id: int

    class Config:
        frozen = True

# Authenticated vendor account
class Vendor(BaseModel):
    role: Literal["vendor"] = "vendor"
    id: int

    class Config:
        frozen = True

# The identity collaborator yields exactly one of these
CurrentUser = Union[Buyer, Vendor]
