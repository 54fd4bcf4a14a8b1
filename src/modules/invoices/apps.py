from django.apps import AppConfig


class InvoicesConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "modules.invoices"
    label = "invoices"

    def ready(self) -> None:
        from modules.invoices.events import InvoiceGenerated
        from modules.invoices.handlers import invoice_generated_handler
        from shared.infrastructure.bus import event_bus

        event_bus.subscribe(InvoiceGenerated, invoice_generated_handler)
