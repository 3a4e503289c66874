# backend/repairdesk/services/technician_service.py
"""
Technician profile management.

Self-service edits never touch verification state or counters; admin
verification decisions are conditional on the current verification status
so two admins cannot both decide the same application.
"""

import logging
from typing import List

from ..core.enums import RoleName
from ..core.exceptions import ConflictException, NotFoundException, ValidationException
from ..core.timezone_utils import utc_now
from ..models.technician import Technician, VerificationStatus
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from ..schemas.technician import TechnicianProfileCreate, TechnicianProfileUpdate
from .base import BaseService

logger = logging.getLogger(__name__)

# Fields a technician may change on their own profile.
SELF_EDITABLE_FIELDS = ("specializations", "experience_years", "bio", "service_area")


class TechnicianService(BaseService):
    def __init__(self, db, config=None):
        super().__init__(db, config)
        self.technician_repository = RepositoryFactory.create_technician_repository(db)

    def get_profile_for_user(self, user: User) -> Technician:
        technician = self.technician_repository.get_by_user_id(user.id)
        if technician is None:
            raise NotFoundException("Technician profile not found")
        return technician

    @BaseService.measure_operation("register_profile")
    def register_profile(self, user: User, data: TechnicianProfileCreate) -> Technician:
        """
        Create the technician profile for a technician account.

        New profiles start pending verification and are invisible to the
        matcher until an admin approves them.
        """
        self.require_role(
            user, RoleName.TECHNICIAN, message="Only technician accounts can register a profile"
        )
        if self.technician_repository.get_by_user_id(user.id) is not None:
            raise ConflictException("Technician profile already exists")

        fields = data.model_dump(exclude={"location"})
        if data.location is not None:
            fields["location_lat"] = data.location.lat
            fields["location_lng"] = data.location.lng

        with self.transaction():
            technician = self.technician_repository.create(
                user_id=user.id,
                verification_status=VerificationStatus.PENDING.value,
                **fields,
            )

        self.log_operation("register_profile", technician_id=technician.id, user_id=user.id)
        return technician

    @BaseService.measure_operation("update_profile")
    def update_profile(self, user: User, data: TechnicianProfileUpdate) -> Technician:
        technician = self.get_profile_for_user(user)

        changes = {
            key: value
            for key, value in data.model_dump(exclude_unset=True).items()
            if key in SELF_EDITABLE_FIELDS and value is not None
        }
        if data.location is not None:
            changes["location_lat"] = data.location.lat
            changes["location_lng"] = data.location.lng
        if not changes:
            return technician

        with self.transaction():
            updated = self.technician_repository.update(technician.id, **changes)
        return updated or technician

    @BaseService.measure_operation("approve_technician")
    def approve_technician(self, admin: User, technician_id: str) -> Technician:
        self.require_role(admin, RoleName.ADMIN)
        with self.transaction():
            technician = self.technician_repository.set_verification(
                technician_id,
                [VerificationStatus.PENDING.value, VerificationStatus.REJECTED.value],
                {
                    "verification_status": VerificationStatus.APPROVED.value,
                    "verified_at": utc_now(),
                    "rejection_reason": None,
                },
            )
        if technician is None:
            self._raise_verification_miss(technician_id, "approve")

        self.logger.info(
            "Technician approved", extra={"technician_id": technician_id, "admin_id": admin.id}
        )
        return technician

    @BaseService.measure_operation("reject_technician")
    def reject_technician(self, admin: User, technician_id: str, reason: str) -> Technician:
        self.require_role(admin, RoleName.ADMIN)
        if not reason or not reason.strip():
            raise ValidationException("A rejection reason is required")

        with self.transaction():
            technician = self.technician_repository.set_verification(
                technician_id,
                [VerificationStatus.PENDING.value],
                {
                    "verification_status": VerificationStatus.REJECTED.value,
                    "rejection_reason": reason.strip(),
                    "verified_at": None,
                },
            )
        if technician is None:
            self._raise_verification_miss(technician_id, "reject")

        self.logger.info(
            "Technician rejected", extra={"technician_id": technician_id, "admin_id": admin.id}
        )
        return technician

    def _raise_verification_miss(self, technician_id: str, action: str) -> None:
        current = self.technician_repository.reload(technician_id)
        if current is None:
            raise NotFoundException("Technician not found")
        raise ConflictException(
            f"Cannot {action} technician with verification status '{current.verification_status}'",
            details={"verification_status": current.verification_status},
        )

    @BaseService.measure_operation("set_availability")
    def set_availability(self, user: User, is_available: bool) -> Technician:
        technician = self.get_profile_for_user(user)
        with self.transaction():
            updated = self.technician_repository.set_available(technician.id, is_available)
        return updated or technician

    @BaseService.measure_operation("set_online")
    def set_online(self, user: User, is_online: bool) -> Technician:
        technician = self.get_profile_for_user(user)
        with self.transaction():
            updated = self.technician_repository.conditional_update(
                technician.id, [], {"is_online": is_online}
            )
        return updated or technician

    def list_pending_verification(
        self, admin: User, skip: int = 0, limit: int = 50
    ) -> List[Technician]:
        self.require_role(admin, RoleName.ADMIN)
        return self.technician_repository.list_by_verification(
            VerificationStatus.PENDING.value, skip=skip, limit=limit
        )
