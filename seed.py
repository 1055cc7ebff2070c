"""
Reset the database and load demo data.

Usage:
    python seed.py

Deletes every row (login ID serials included), then creates an admin, an HR
manager, five employees with generated login IDs and temporary passwords, and
some skills, leave requests, documents and company logs.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from dotenv import load_dotenv
from sqlalchemy import delete

from actions.employees import create_employee_record
from actions.helpers import append_audit
from config import Config
from db import Base, SessionLocal, init_engine
from models import (
    CompanyLog,
    Document,
    Employee,
    EmployeeProfile,
    EmployeeSkill,
    LeaveRequest,
    LoginIdSerial,
    Session as DbSession,
    Skill,
    User,
)
from utils import AuthContext, iso_utc_now, new_uuid, to_iso_utc


_log = logging.getLogger("seed")

# Children first.
_RESET_ORDER = [
    CompanyLog,
    LeaveRequest,
    Document,
    EmployeeSkill,
    Skill,
    EmployeeProfile,
    Employee,
    DbSession,
    User,
    LoginIdSerial,
]

ADMIN = {
    "firstName": "Admin",
    "lastName": "User",
    "email": "admin@dayflow.com",
    "password": "Admin@123",
    "role": "ADMIN",
    "department": "Management",
    "designation": "System Administrator",
    "dateOfJoin": "2022-01-01",
    "profile": {
        "phone": "+91-9876543210",
        "dob": "1985-05-15",
        "gender": "Male",
        "addressLine": "123 Admin Street",
        "city": "Mumbai",
        "state": "Maharashtra",
        "country": "India",
        "pincode": "400001",
        "emergencyContactName": "Admin Emergency",
        "emergencyContactPhone": "+91-9876543211",
    },
}

HR_MANAGER = {
    "firstName": "HR",
    "lastName": "Manager",
    "email": "hr@dayflow.com",
    "password": "HrManager@123",
    "role": "HR",
    "department": "Human Resources",
    "designation": "HR Manager",
    "dateOfJoin": "2022-02-01",
    "profile": {
        "phone": "+91-9876543220",
        "dob": "1990-03-20",
        "gender": "Female",
        "addressLine": "456 HR Avenue",
        "city": "Mumbai",
        "state": "Maharashtra",
        "country": "India",
        "pincode": "400002",
        "emergencyContactName": "HR Emergency",
        "emergencyContactPhone": "+91-9876543221",
    },
}

EMPLOYEES = [
    ("John", "Doe", "john.doe@dayflow.com", "Engineering", "Senior Software Engineer", "2022-03-15",
     "+91-9876543230", "1992-07-10", "Male", "789 Tech Street", "Bangalore", "Karnataka", "560001"),
    ("Jane", "Smith", "jane.smith@dayflow.com", "Engineering", "Software Engineer", "2022-04-01",
     "+91-9876543240", "1995-09-25", "Female", "321 Developer Road", "Bangalore", "Karnataka", "560002"),
    ("Michael", "Johnson", "michael.johnson@dayflow.com", "Sales", "Sales Manager", "2022-05-10",
     "+91-9876543250", "1988-11-12", "Male", "654 Sales Boulevard", "Delhi", "Delhi", "110001"),
    ("Sarah", "Williams", "sarah.williams@dayflow.com", "Marketing", "Marketing Executive", "2023-01-15",
     "+91-9876543260", "1993-04-18", "Female", "987 Marketing Lane", "Pune", "Maharashtra", "411001"),
    ("David", "Brown", "david.brown@dayflow.com", "Engineering", "Junior Software Engineer", "2023-06-01",
     "+91-9876543270", "1997-12-05", "Male", "147 Code Street", "Hyderabad", "Telangana", "500001"),
]

SKILLS = ["JavaScript", "TypeScript", "React", "Node.js", "Python", "Sales", "Marketing", "Communication"]

# (skill, base level, base years) assigned to every engineer, stepped per engineer.
ENGINEERING_SKILLS = [("JavaScript", 4, 2.0), ("React", 3, 1.5), ("Node.js", 3, 1.0)]

LEAVE_REQUESTS = [
    (0, "2024-01-15", "2024-01-17", "Personal work", "APPROVED"),
    (1, "2024-02-01", "2024-02-03", "Family function", "PENDING"),
    (2, "2024-01-20", "2024-01-22", "Sick leave", "APPROVED"),
    (3, "2024-03-10", "2024-03-12", "Vacation", "REJECTED"),
]

DOCUMENTS = [
    (0, "Resume - John Doe", "RESUME", "https://example.com/documents/john-doe-resume.pdf", 245760),
    (1, "Offer Letter - Jane Smith", "OFFER_LETTER", "https://example.com/documents/jane-smith-offer.pdf", 189440),
    (2, "Aadhar Card - Michael Johnson", "ID_PROOF", "https://example.com/documents/michael-johnson-aadhar.pdf", 156672),
]


def _date(value: str) -> datetime:
    return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)


def reset_database(db) -> None:
    for model in _RESET_ORDER:
        db.execute(delete(model))


def _create_staff(db, person: dict, *, manager_id: str = "") -> tuple[User, Employee, str]:
    return create_employee_record(
        db,
        first_name=person["firstName"],
        last_name=person["lastName"],
        email=person["email"],
        role=person.get("role", "EMPLOYEE"),
        join_date=_date(person["dateOfJoin"]),
        department=person["department"],
        designation=person["designation"],
        manager_id=manager_id,
        profile=person.get("profile"),
        password=person.get("password", ""),
        password_changed=bool(person.get("password")),
        email_verified=bool(person.get("password")),
    )


def seed_database(db) -> dict:
    """Create the demo rows. Returns the issued credentials; nothing is committed."""
    now = iso_utc_now()
    credentials = []

    admin_user, admin_emp, admin_pwd = _create_staff(db, ADMIN)
    hr_user, hr_emp, hr_pwd = _create_staff(db, HR_MANAGER)
    credentials.append({"role": "ADMIN", "loginId": admin_user.loginId, "email": admin_user.email, "password": admin_pwd})
    credentials.append({"role": "HR", "loginId": hr_user.loginId, "email": hr_user.email, "password": hr_pwd})

    employees: list[Employee] = []
    for first, last, email, dept, title, joined, phone, dob, gender, addr, city, state, pincode in EMPLOYEES:
        user, emp, pwd = _create_staff(
            db,
            {
                "firstName": first,
                "lastName": last,
                "email": email,
                "department": dept,
                "designation": title,
                "dateOfJoin": joined,
                "profile": {
                    "phone": phone,
                    "dob": dob,
                    "gender": gender,
                    "addressLine": addr,
                    "city": city,
                    "state": state,
                    "country": "India",
                    "pincode": pincode,
                    "emergencyContactName": f"{first} Emergency Contact",
                    "emergencyContactPhone": phone[:-1] + "1",
                },
            },
            manager_id=admin_emp.employeeId if dept == "Engineering" else hr_emp.employeeId,
        )
        employees.append(emp)
        credentials.append({"role": "EMPLOYEE", "loginId": user.loginId, "email": user.email, "password": pwd})
        _log.info("created employee %s %s login_id=%s", first, last, user.loginId)

    skills = {}
    for name in SKILLS:
        skill = Skill(skillId="SKL-" + new_uuid(), name=name)
        db.add(skill)
        skills[name] = skill

    engineers = [e for e in employees if e.department == "Engineering"]
    for i, emp in enumerate(engineers):
        for skill_name, level, years in ENGINEERING_SKILLS:
            db.add(EmployeeSkill(employeeId=emp.employeeId, skillId=skills[skill_name].skillId, level=level + i, years=years + i * 0.5))

    for idx, start, end, reason, status in LEAVE_REQUESTS:
        decided = status != "PENDING"
        db.add(
            LeaveRequest(
                leaveId="LV-" + new_uuid(),
                employeeId=employees[idx].employeeId,
                fromDate=to_iso_utc(_date(start)),
                toDate=to_iso_utc(_date(end)),
                reason=reason,
                status=status,
                approvedByUserId=hr_user.userId if decided else "",
                approvedAt=now if decided else "",
                createdAt=now,
            )
        )

    for idx, title, doc_type, url, size in DOCUMENTS:
        db.add(
            Document(
                documentId="DOC-" + new_uuid(),
                title=title,
                type=doc_type,
                fileUrl=url,
                mimeType="application/pdf",
                sizeBytes=size,
                ownerEmployeeId=employees[idx].employeeId,
                createdAt=now,
            )
        )

    hr_actor = AuthContext(valid=True, userId=hr_user.userId, email=hr_user.email, role="HR", expiresAt="")
    append_audit(
        db,
        entityType="Employee",
        entityId=employees[0].employeeId,
        action="EMPLOYEE_CREATED",
        actor=hr_actor,
        meta={"department": "Engineering", "designation": "Senior Software Engineer"},
    )
    append_audit(
        db,
        entityType="LeaveRequest",
        entityId=employees[0].employeeId,
        action="LEAVE_APPROVED",
        actor=hr_actor,
        meta={"fromDate": LEAVE_REQUESTS[0][1], "toDate": LEAVE_REQUESTS[0][2]},
    )

    db.flush()
    return {"credentials": credentials}


def main() -> None:
    load_dotenv()
    cfg = Config()
    cfg.validate()
    logging.basicConfig(level=cfg.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    engine = init_engine(cfg.DATABASE_URL)
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        reset_database(db)
        out = seed_database(db)
        db.commit()
    except Exception:
        db.rollback()
        _log.exception("seed failed")
        raise
    finally:
        db.close()

    print("Seed completed. Test credentials:")
    for c in out["credentials"]:
        print(f"  {c['role']:<9} loginId={c['loginId']} email={c['email']} password={c['password']}")


if __name__ == "__main__":
    main()
