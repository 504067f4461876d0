from textual.message import Message


class QuitRequestedMessage(Message):
    """
    posted by the quit dialog once the user confirms, handled by the app
    """

    bubble = True


class UserLogoutMessage(Message):
    """
    posted by the sidebar after the logout confirmation;
    the app ends the session and shows the login screen again
    """

    bubble = True


class ModeSwitchedMessage(Message):
    """
    posted right before switch_mode, from the sidebar menu or the app's login flow
    """

    bubble = True

    def __init__(self, old_mode: str, new_mode: str) -> None:
        super().__init__()
        self.old_mode = old_mode
        self.new_mode = new_mode
