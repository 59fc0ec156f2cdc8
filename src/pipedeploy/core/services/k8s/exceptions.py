from pipedeploy.exception import RemoteCallError


class OrchestratorError(RemoteCallError):
    """
    Ошибка обращения к Kubernetes API.
    """

    system = "kubernetes"
