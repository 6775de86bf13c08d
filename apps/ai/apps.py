from django.apps import AppConfig


class AIConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.ai"
    label = "ai"
    verbose_name = "AI learning content"

    client = None

    def ready(self):
        from .client import GeminiClient

        # Built once per process; views pick it up through get_content_service().
        self.client = GeminiClient.from_settings()
