"""HTTP handlers for notifications."""

from typing import Mapping

from letter_archive.dto import MarkAllReadResponse, NotificationListResponse, NotificationResponse
from letter_archive.entities import Actor, NotificationFilters, Pagination, split_query
from letter_archive.services import NotificationService
from letter_archive.services.notification_service import NOTIFICATION_SORT_FIELDS


class NotificationHandler:
    def __init__(self, notifications: NotificationService) -> None:
        self._notifications = notifications

    def list_notifications(self, params: Mapping[str, str], actor: Actor) -> NotificationListResponse:
        filter_params, paging = split_query(params)
        result = self._notifications.list_notifications(
            actor,
            NotificationFilters.from_params(filter_params),
            Pagination.from_params(paging, sortable=NOTIFICATION_SORT_FIELDS),
        )
        return NotificationListResponse.model_validate(result)

    def mark_read(self, notification_id: str, actor: Actor) -> NotificationResponse:
        return NotificationResponse.model_validate(
            self._notifications.mark_read(actor, notification_id)
        )

    def mark_all_read(self, actor: Actor) -> MarkAllReadResponse:
        return MarkAllReadResponse(updated=self._notifications.mark_all_read(actor))

    def delete(self, notification_id: str, actor: Actor) -> None:
        self._notifications.delete(actor, notification_id)
