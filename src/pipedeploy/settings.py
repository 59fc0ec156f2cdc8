from pipedeploy import __version__

LOGO = rf"""
       _                _            _
 _ __ (_)_ __   ___  __| | ___ _ __ | | ___  _   _
| '_ \| | '_ \ / _ \/ _` |/ _ \ '_ \| |/ _ \| | | |
| |_) | | |_) |  __/ (_| |  __/ |_) | | (_) | |_| |
| .__/|_| .__/ \___|\__,_|\___| .__/|_|\___/ \__, |
|_|     |_|                   |_|            |___/  v{__version__}
"""
