from django.apps import AppConfig  # type: ignore


class SwapsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.swaps"
    label = "swaps"

    def ready(self) -> None:
        from shared.application.message_bus import message_bus

        from .application.command_handlers import build_handlers
        from .handlers import EVENT_HANDLERS

        for command_type, handler in build_handlers().items():
            if not message_bus.has_command_handler(command_type):
                message_bus.register_command_handler(command_type, handler.handle)

        for event_type, handlers in EVENT_HANDLERS.items():
            for handler in handlers:
                message_bus.register_event_handler(event_type, handler)
