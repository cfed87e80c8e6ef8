from .test_scope import TestScope as TestScope
