from gentx_check.test_utils.fixtures import *  # noqa: F401,F403
