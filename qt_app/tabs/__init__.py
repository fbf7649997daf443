from qt_app.tabs.profile_tab import ProfileTab

__all__ = ["ProfileTab"]
