from datetime import datetime

from pydantic import BaseModel, Field

from campsched.models.notification import NotificationType


class NotificationOut(BaseModel):
    id: str
    user_id: str
    title: str
    message: str
    notification_type: NotificationType
    payload: dict = Field(default_factory=dict)
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}
