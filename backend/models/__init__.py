from models.audit_log import AuditLog
from models.class_group import ClassGroup
from models.classroom import Classroom
from models.coverage_request import CoverageRequest, CoverageRequestShift
from models.day_of_week import DayOfWeek
from models.schedule_cell import ScheduleCell, ScheduleCellClassGroup
from models.staff import Staff
from models.staffing_event import StaffingEvent, StaffingEventShift
from models.sub_assignment import SubAssignment
from models.sub_availability import SubAvailability, SubAvailabilityException, SubClassGroupQualification
from models.substitute_contact import SubContactShiftOverride, SubstituteContact
from models.teacher_schedule import TeacherSchedule
from models.time_off import TimeOffRequest, TimeOffShift
from models.time_slot import TimeSlot

__all__ = [
	"AuditLog",
	"ClassGroup",
	"Classroom",
	"CoverageRequest",
	"CoverageRequestShift",
	"DayOfWeek",
	"ScheduleCell",
	"ScheduleCellClassGroup",
	"Staff",
	"StaffingEvent",
	"StaffingEventShift",
	"SubAssignment",
	"SubAvailability",
	"SubAvailabilityException",
	"SubClassGroupQualification",
	"SubContactShiftOverride",
	"SubstituteContact",
	"TeacherSchedule",
	"TimeOffRequest",
	"TimeOffShift",
	"TimeSlot",
]
