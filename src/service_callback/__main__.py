# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Allow ``python -m service_callback``."""

from service_callback.cli import main

main()
