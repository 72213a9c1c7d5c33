# medislot/auth.py
# Identity is resolved upstream (gateway) and forwarded as headers:
# - X-User-ID: required, opaque user id
# - X-User-Role: patient (default) | doctor | admin
# - X-Doctor-ID: doctor profile id, for role=doctor

from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException, Request

ROLES = ("patient", "doctor", "admin")


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str = "patient"
    doctor_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_manage_doctor(self, doctor_id: int) -> bool:
        return self.is_admin or (self.role == "doctor" and self.doctor_id == doctor_id)


def get_actor(
    request: Request,
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_doctor_id: int | None = Header(None),
) -> Actor:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-ID")

    role = (x_user_role or "patient").lower()
    if role not in ROLES:
        raise HTTPException(status_code=401, detail=f"Unknown role: {role}")

    actor = Actor(user_id=x_user_id, role=role, doctor_id=x_doctor_id)
    # Picked up by the audit middleware
    request.state.actor = actor
    return actor


def require_admin(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return actor
