from app.timetracking.models import TimeSession
from app.workitems.models import (
	Activity,
	Customer,
	Lead,
	Note,
	Notification,
	Order,
	Team,
	TeamMember,
	UserProfile,
)

__all__ = [
	"Activity",
	"Customer",
	"Lead",
	"Note",
	"Notification",
	"Order",
	"Team",
	"TeamMember",
	"TimeSession",
	"UserProfile",
]
