from models.activity import Activity
from models.course import Course
from models.instructor import Instructor
from models.room import Room
from models.schedule_entry import ScheduleEntry
from models.schedule_run import ScheduleRun
from models.student_group import StudentGroup
from models.time_slot import TimeSlot

__all__ = [
	"Activity",
	"Course",
	"Instructor",
	"Room",
	"ScheduleEntry",
	"ScheduleRun",
	"StudentGroup",
	"TimeSlot",
]
