"""Service lookups for route injection; ``create_app`` places the instances on ``app.state``."""
from typing import Annotated

from fastapi import Depends, Request

from .services.accounts import UserService
from .services.community import CommunityService
from .services.finance import FinanceService
from .services.missions import MissionService


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_mission_service(request: Request) -> MissionService:
    return request.app.state.mission_service


def get_finance_service(request: Request) -> FinanceService:
    return request.app.state.finance_service


def get_community_service(request: Request) -> CommunityService:
    return request.app.state.community_service


Users = Annotated[UserService, Depends(get_user_service)]
Missions = Annotated[MissionService, Depends(get_mission_service)]
Finance = Annotated[FinanceService, Depends(get_finance_service)]
Community = Annotated[CommunityService, Depends(get_community_service)]
