from datetime import datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer
from pydantic.alias_generators import to_camel

from dental_backend.core.civil_time import format_utc_iso

# Stored values are naive UTC; the API always renders them with a Z suffix.
UtcDateTime = Annotated[datetime, PlainSerializer(format_utc_iso, return_type=str, when_used='json')]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserSummary(CamelModel):
    id: str
    name: str
    email: str


class DentistSummary(CamelModel):
    id: str
    specialization: str | None = None
    user: UserSummary | None = None


class ClinicBranchSummary(CamelModel):
    id: int
    name: str
    address: str


class Pagination(CamelModel):
    total: int
    limit: int
    offset: int
    has_more: bool


def summarize_user(user) -> UserSummary | None:
    if user is None:
        return None
    return UserSummary(id=user.id, name=user.name, email=user.email)


def summarize_dentist(dentist) -> DentistSummary | None:
    if dentist is None:
        return None
    return DentistSummary(
        id=dentist.id,
        specialization=dentist.specialization,
        user=summarize_user(dentist.user),
    )


def summarize_clinic_branch(clinic_branch) -> ClinicBranchSummary | None:
    if clinic_branch is None:
        return None
    return ClinicBranchSummary(id=clinic_branch.id, name=clinic_branch.name, address=clinic_branch.address)


def build_pagination(total: int, limit: int, offset: int, returned: int) -> Pagination:
    return Pagination(total=total, limit=limit, offset=offset, has_more=offset + returned < total)


def success_response(data, message: str) -> dict:
    """Wrap a payload in the ``{success, data, message}`` envelope."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode='json', by_alias=True)
    elif isinstance(data, list):
        data = [item.model_dump(mode='json', by_alias=True) if isinstance(item, BaseModel) else item for item in data]
    return {'success': True, 'data': data, 'message': message}
