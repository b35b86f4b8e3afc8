from dinein.managers.staff.staff import StaffCriteria, StaffManager, StaffSearch

__all__ = ["StaffManager", "StaffCriteria", "StaffSearch"]
