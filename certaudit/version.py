from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

try:
    version = get_version("certaudit")
except PackageNotFoundError:
    version = "?"
    print(
        "Cannot determine Certaudit version. "
        'If running from source you should at least run "pip install -e ."'
    )

BANNER = "Certaudit v{} - AD CS certificate template impersonation check\n".format(
    version
)
