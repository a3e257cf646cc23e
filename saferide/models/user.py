"""User Model - Read-only view of a rider profile owned by the profile subsystem."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from saferide.utils.timezone_utils import utc_now

_GENDER_ALIASES = {
    "f": "female",
    "female": "female",
    "m": "male",
    "male": "male",
}


class UserProfile(BaseModel):
    """
    User profile as stored in the ``users`` collection.

    Fields:
    - id: Firebase UID, also used as the owner id on ride requests
    - gender: Free form (F/M/female/male/other) or None
    - department: University department, used for the shared department bonus
    - is_student_verified: Verified university student
    - fcm_token: Firebase Cloud Messaging token for push notifications
    """
    id: str
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone_number: Optional[str] = None
    department: Optional[str] = None
    student_id: Optional[str] = None
    is_student_verified: bool = False
    profile_image_url: Optional[str] = None
    rating: float = Field(default=5.0, ge=0, le=5)
    gender: Optional[str] = Field(None, description="F/M/O or None")
    fcm_token: Optional[str] = Field(None, description="FCM token for push notifications")
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def normalized_gender(self) -> Optional[str]:
        """'female', 'male', another lowercase value, or None when unknown."""
        if not self.gender or not self.gender.strip():
            return None
        value = self.gender.strip().lower()
        return _GENDER_ALIASES.get(value, value)

    @property
    def normalized_department(self) -> Optional[str]:
        if not self.department or not self.department.strip():
            return None
        return self.department.strip().lower()

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or "A rider"
