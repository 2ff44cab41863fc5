"""
Domain dataclasses used across the application.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class SessionIdentity:
    """Claims handed over by the identity provider for the current session."""
    external_id: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    image_url: Optional[str] = None
    role_hint: Optional[str] = None   # "patient", "doctor" or "admin"


@dataclass
class CurrentUser:
    """Application user resolved from a session, with its role profile."""
    id: str
    external_id: str
    user_type: str             # "patient", "doctor" or "admin"
    email: str
    first_name: str
    last_name: str
    phone: Optional[str] = None
    profile_image: Optional[str] = None
    is_active: bool = True
    is_verified: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    patient_data: Optional[Dict[str, Any]] = None
    doctor_data: Optional[Dict[str, Any]] = None
    persisted: bool = True     # False for the transient fallback user

    @property
    def patient_id(self) -> Optional[str]:
        return self.patient_data["id"] if self.patient_data else None

    @property
    def doctor_id(self) -> Optional[str]:
        return self.doctor_data["id"] if self.doctor_data else None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MedicalRecord:
    """One entry of a patient's merged medical history."""
    id: str
    date: datetime
    type: str                  # "consultation", "symptom" or "prescription"
    title: str
    description: str
    status: str
    doctor: Optional[str] = None
    doctor_specialty: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
