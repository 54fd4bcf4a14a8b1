from django.apps import AppConfig


class ReturnsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.returns"
    label = "returns"

    def ready(self) -> None:
        from modules.returns.events import RefundStatusChanged, ReturnStatusChanged
        from modules.returns.handlers import (
            refund_status_changed_handler,
            return_status_changed_handler,
        )
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(ReturnStatusChanged, return_status_changed_handler)
        event_bus.subscribe(RefundStatusChanged, refund_status_changed_handler)
