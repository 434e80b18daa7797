import unittest

from chat_cli.core.commands import CommandKind, classify, is_blank, strip_terminator


class TestCommands(unittest.TestCase):
    def test_quit_words_terminate(self):
        """Both quit spellings terminate, with or without a line terminator"""
        for line in ("quit\n", "/quit\n", "quit", "/quit\r\n"):
            self.assertIs(classify(line).kind, CommandKind.TERMINATE, line)

    def test_models_browses(self):
        self.assertIs(classify("/models\n").kind, CommandKind.BROWSE_MODELS)

    def test_ordinary_turn_keeps_text(self):
        command = classify("Hello\n")
        self.assertIs(command.kind, CommandKind.ORDINARY_TURN)
        self.assertEqual(command.text, "Hello")

    def test_directives_match_exactly(self):
        """Near misses are sent to the model as ordinary text"""
        for line in ("quit smoking tips\n", "Quit\n", " quit\n", "quit \n", "/models please\n", "/exit\n"):
            command = classify(line)
            self.assertIs(command.kind, CommandKind.ORDINARY_TURN, line)
            self.assertEqual(command.text, line[:-1])

    def test_only_one_terminator_is_stripped(self):
        self.assertEqual(strip_terminator("a\n\n"), "a\n")
        self.assertEqual(strip_terminator("a\r\n"), "a")
        self.assertEqual(strip_terminator("a\r"), "a")
        self.assertEqual(strip_terminator("a"), "a")

    def test_interior_whitespace_preserved(self):
        self.assertEqual(classify("  two  spaces \t\n").text, "  two  spaces \t")

    def test_blank_lines_are_not_classified(self):
        for line in ("", "\n", "   \n", "\t\r\n"):
            self.assertTrue(is_blank(line))
            with self.assertRaises(ValueError):
                classify(line)


if __name__ == "__main__":
    unittest.main()
