from qt_app.adapters.profile_adapter import ProfileAdapter

__all__ = ["ProfileAdapter"]
