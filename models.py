from __future__ import annotations

from sqlalchemy import Boolean, Column, Float, Integer, String, Text, UniqueConstraint

from db import Base


class LoginIdSerial(Base):
    __tablename__ = "login_id_serials"

    year = Column(Integer, primary_key=True, autoincrement=False)
    # Last issued serial for the year (not the next one).
    serial = Column(Integer, nullable=False, default=0)


class User(Base):
    __tablename__ = "users"

    userId = Column(String, primary_key=True)
    name = Column(Text, nullable=False, default="")
    email = Column(String, nullable=False, unique=True, index=True)
    # OI<initials><year><serial>; null only for accounts created outside employee onboarding.
    loginId = Column(String, nullable=True, unique=True, index=True)
    passwordHash = Column(Text, nullable=False, default="")
    role = Column(String, nullable=False, default="EMPLOYEE", index=True)
    passwordChanged = Column(Boolean, nullable=False, default=False)
    emailVerified = Column(Boolean, nullable=False, default=False)
    isActive = Column(Boolean, nullable=False, default=True, index=True)
    createdAt = Column(Text, nullable=False, default="", index=True)
    updatedAt = Column(Text, nullable=False, default="")


class Employee(Base):
    __tablename__ = "employees"

    employeeId = Column(String, primary_key=True)
    # Same value as the user's loginId.
    employeeCode = Column(String, nullable=False, unique=True, index=True)
    userId = Column(String, nullable=False, unique=True, index=True)
    department = Column(Text, nullable=False, default="")
    designation = Column(Text, nullable=False, default="")
    dateOfJoin = Column(Text, nullable=False, default="")
    yearOfJoining = Column(Integer, nullable=False, index=True)
    managerId = Column(String, nullable=False, default="", index=True)
    createdAt = Column(Text, nullable=False, default="")


class EmployeeProfile(Base):
    __tablename__ = "employee_profiles"

    profileId = Column(String, primary_key=True)
    employeeId = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=False, default="")
    dob = Column(Text, nullable=False, default="")
    gender = Column(String, nullable=False, default="")
    addressLine = Column(Text, nullable=False, default="")
    city = Column(Text, nullable=False, default="")
    state = Column(Text, nullable=False, default="")
    country = Column(Text, nullable=False, default="")
    pincode = Column(String, nullable=False, default="")
    emergencyContactName = Column(Text, nullable=False, default="")
    emergencyContactPhone = Column(String, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")


class Skill(Base):
    __tablename__ = "skills"

    skillId = Column(String, primary_key=True)
    name = Column(String, nullable=False, unique=True)


class EmployeeSkill(Base):
    __tablename__ = "employee_skills"
    __table_args__ = (UniqueConstraint("employeeId", "skillId", name="uq_employee_skills_emp_skill"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    employeeId = Column(String, nullable=False, index=True)
    skillId = Column(String, nullable=False, index=True)
    level = Column(Integer, nullable=False, default=1)
    years = Column(Float, nullable=False, default=0.0)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    leaveId = Column(String, primary_key=True)
    employeeId = Column(String, nullable=False, index=True)
    fromDate = Column(Text, nullable=False, default="")
    toDate = Column(Text, nullable=False, default="")
    reason = Column(Text, nullable=False, default="")
    status = Column(String, nullable=False, default="PENDING", index=True)  # PENDING|APPROVED|REJECTED
    approvedByUserId = Column(String, nullable=False, default="")
    approvedAt = Column(Text, nullable=False, default="")
    createdAt = Column(Text, nullable=False, default="")


class Document(Base):
    __tablename__ = "documents"

    documentId = Column(String, primary_key=True)
    title = Column(Text, nullable=False, default="")
    type = Column(String, nullable=False, default="", index=True)  # RESUME|OFFER_LETTER|ID_PROOF|...
    fileUrl = Column(Text, nullable=False, default="")
    mimeType = Column(String, nullable=False, default="")
    sizeBytes = Column(Integer, nullable=False, default=0)
    ownerEmployeeId = Column(String, nullable=False, default="", index=True)
    createdAt = Column(Text, nullable=False, default="")


class CompanyLog(Base):
    __tablename__ = "company_logs"

    logId = Column(String, primary_key=True)
    action = Column(String, nullable=False, default="", index=True)
    entity = Column(String, nullable=False, default="", index=True)
    entityId = Column(String, nullable=False, default="", index=True)
    actorUserId = Column(String, nullable=False, default="", index=True)
    actorRole = Column(String, nullable=False, default="")
    at = Column(Text, nullable=False, default="", index=True)
    correlationId = Column(String, nullable=False, default="")
    metaJson = Column(Text, nullable=False, default="")


class Session(Base):
    __tablename__ = "sessions"

    sessionId = Column(String, primary_key=True)
    tokenHash = Column(String, nullable=False, unique=True, index=True)
    tokenPrefix = Column(String, nullable=False, default="", index=True)
    userId = Column(String, nullable=False, default="", index=True)
    role = Column(String, nullable=False, default="", index=True)
    issuedAt = Column(Text, nullable=False, default="")
    expiresAt = Column(Text, nullable=False, default="")
    lastSeenAt = Column(Text, nullable=False, default="")
    revokedAt = Column(Text, nullable=False, default="")
    revokedBy = Column(String, nullable=False, default="")
