"""Recording stand-ins for the runner's collaborators."""


class RecordingSleeper:
    """Async sleeper that records requested delays instead of waiting."""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class RecordingHandlers:
    """Step handlers that record (action, step, context) calls.

    `returns` maps action name to the value a handler should return and
    `errors` maps action name to an exception it should raise.
    """

    ACTIONS = ("rescan_nodes", "check_node", "get_status", "stop_playback",
               "restart_service")

    def __init__(self, returns=None, errors=None):
        self.calls = []
        self.returns = dict(returns or {})
        self.errors = dict(errors or {})

    def actions(self):
        return [action for action, _, _ in self.calls]

    def _handler(self, action):
        def handler(step, context):
            self.calls.append((action, step, context))
            if action in self.errors:
                raise self.errors[action]
            return self.returns.get(action)
        return handler

    def as_mapping(self):
        from Aether.Core.playbook_parser import StepAction

        return {StepAction(action): self._handler(action) for action in self.ACTIONS}
