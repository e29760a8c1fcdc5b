import unittest

from serverprep.shell import (
    Trusted,
    escape_double_quoted,
    mysql_command,
    quote,
    render,
    sql_identifier,
    sql_string,
)


class QuotingTests(unittest.TestCase):
    def test_plain_words_stay_readable(self) -> None:
        self.assertEqual(quote("deploy"), "deploy")
        self.assertEqual(quote("/var/www/blog"), "/var/www/blog")

    def test_untrusted_values_become_single_words(self) -> None:
        self.assertEqual(quote("a b"), "'a b'")
        self.assertEqual(quote("x; rm -rf /"), "'x; rm -rf /'")

    def test_trusted_fragments_pass_through(self) -> None:
        self.assertEqual(quote(Trusted("a b")), "a b")

    def test_render_dedents_and_quotes(self) -> None:
        script = render(
            """
            if [ -d {root} ]; then
              echo ok
            fi
            """,
            root="/srv/my app",
        )
        self.assertEqual(script, "if [ -d '/srv/my app' ]; then\n  echo ok\nfi")


class DoubleQuoteTests(unittest.TestCase):
    def test_quote_and_dollar_are_escaped(self) -> None:
        self.assertEqual(escape_double_quoted('p"$1'), 'p\\"\\$1')

    def test_backslash_and_backtick_are_escaped(self) -> None:
        self.assertEqual(escape_double_quoted("a\\b`c`"), "a\\\\b\\`c\\`")


class SqlTests(unittest.TestCase):
    def test_string_literal(self) -> None:
        self.assertEqual(sql_string("it's"), "'it\\'s'")

    def test_identifier(self) -> None:
        self.assertEqual(sql_identifier("db`1"), "`db``1`")

    def test_password_reaches_mysql_unchanged(self) -> None:
        password = sql_string('p"$1')
        sql = f"CREATE USER IF NOT EXISTS 'u1'@'localhost' IDENTIFIED BY {password};"
        command = mysql_command(sql)
        self.assertTrue(command.startswith('sudo mysql -e "'))
        self.assertTrue(command.endswith('"'))
        self.assertIn("IDENTIFIED BY 'p\\\"\\$1'", command)

    def test_command_has_no_unescaped_double_quotes(self) -> None:
        command = mysql_command('SELECT "$(reboot)";')
        inner = command[len('sudo mysql -e "'):-1]
        self.assertEqual(inner, 'SELECT \\"\\$(reboot)\\";')


if __name__ == "__main__":
    unittest.main()
