import unittest
import sys
import os

# Add the parent directory to the Python path so we can import the chat_cli module
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Import all test modules
from tests.test_commands import TestCommands
from tests.test_retry import TestRetry
from tests.test_history import TestHistoryStore, TestHistoryRetry
from tests.test_stream import TestConsumeStream, TestEventsFromChunks, TestOpenAIClientWrapper, TestWithDocument
from tests.test_selector import TestModelSelector
from tests.test_session import TestSessionController
from tests.test_config import TestSettings
from tests.test_errors import TestAppError, TestConsoleReporter
from tests.test_cli import TestConsolePresenter, TestSpinner, TestHelpers, TestRunCLI, TestPromptCommand

if __name__ == '__main__':
    # Create a test suite with all test cases
    test_suite = unittest.TestSuite()

    # Add test cases from each module
    for case in (
        TestCommands,
        TestRetry,
        TestHistoryStore,
        TestHistoryRetry,
        TestConsumeStream,
        TestEventsFromChunks,
        TestOpenAIClientWrapper,
        TestWithDocument,
        TestModelSelector,
        TestSessionController,
        TestSettings,
        TestAppError,
        TestConsoleReporter,
        TestConsolePresenter,
        TestSpinner,
        TestHelpers,
        TestRunCLI,
        TestPromptCommand,
    ):
        test_suite.addTests(unittest.TestLoader().loadTestsFromTestCase(case))

    # Run the tests
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(test_suite)
    sys.exit(not result.wasSuccessful())
