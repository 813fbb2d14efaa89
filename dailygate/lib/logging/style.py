from pygments.style import Style
from pygments.token import Keyword, Name, Number, Punctuation, String


class LogStyle(Style):
    styles = {
        Keyword: "#af87ff",
        Name.Tag: "#5fafd7",
        Number: "#d7af5f",
        Punctuation: "#808080",
        String: "#87af87",
    }
