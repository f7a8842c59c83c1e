class UserRole:
    SUPER_ADMIN = "SuperAdmin"
    ADMIN = "Admin"
    DOCTOR = "Doctor"
    NURSE = "Nurse"
    DISTRICT_ADMIN = "District Admin"

    ALL = [SUPER_ADMIN, ADMIN, DOCTOR, NURSE, DISTRICT_ADMIN]
